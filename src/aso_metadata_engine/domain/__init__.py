"""Pure domain rules: registry, patterns, combos, priority, KPIs and element scoring."""
