from .renderer import Renderer, RenderResult, render_text_fallback

__all__ = ["Renderer", "RenderResult", "render_text_fallback"]
