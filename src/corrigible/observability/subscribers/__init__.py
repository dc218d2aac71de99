"""Event subscribers registered by configure()."""
