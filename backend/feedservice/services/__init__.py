"""Feed service layers: upstream providers, cache, image detection, feed orchestration."""
