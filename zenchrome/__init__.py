"""Run browser test bundles in Chrome tabs with hot reload."""
