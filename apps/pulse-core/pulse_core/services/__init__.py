from pulse_core.services.pages import connect_page, get_active_pages

__all__ = ["connect_page", "get_active_pages"]
