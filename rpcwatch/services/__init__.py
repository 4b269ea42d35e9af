"""Service layer: endpoint registry, sample feed, reporting and the monitoring facade."""
