"""Data capture metrics for Commerce7 tasting-room sales."""
