"""트레이 UI 어댑터."""
