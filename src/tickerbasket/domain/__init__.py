"""Pure trading rules: planning, cooldown and event emission."""
