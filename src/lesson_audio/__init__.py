"""Guided lesson backend with progressive paragraph audio."""
