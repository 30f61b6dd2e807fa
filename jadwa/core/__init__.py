"""Cross-cutting infrastructure: logging, identity, locks, audit and side-effect dispatch."""
