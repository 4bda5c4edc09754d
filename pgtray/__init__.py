"""pgtray: PostgreSQL 상태 모니터 및 백업 트레이 앱."""

__version__ = "0.3.0"
