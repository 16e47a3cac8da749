"""Services for extracting, merging, assessing and rendering CV records."""
