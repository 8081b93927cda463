"""Page-load health checks."""

from .page_health import LinkStatus, PageHealth, check_page, critical_errors, load_known_issues

__all__ = ["LinkStatus", "PageHealth", "check_page", "critical_errors", "load_known_issues"]
