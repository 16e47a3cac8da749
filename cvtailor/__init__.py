"""CV Tailor extraction core.

Turns untrusted generation-service replies into validated canonical CV
records, merges refinements without losing accepted data, and audits the
result for user-resolvable gaps.
"""

__version__ = "0.1.0"
