"""API routers: articles, carousel, diagrams."""
