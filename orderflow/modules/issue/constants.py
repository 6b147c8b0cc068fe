"""Issue tracker event types."""

EVENT_ISSUE_CREATED = "issue.created"
EVENT_ISSUE_RESOLVED = "issue.resolved"
