"""Comment Pulse worker — runs queued jobs against the Graph API and the analysis engine."""
