"""HTTP service exposing the drawmark engine."""
