"""모니터링·백업 엔진."""
