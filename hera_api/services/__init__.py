"""Request-independent logic: smart codes, guardrails, presets, navigation, POS."""
