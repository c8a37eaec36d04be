"""Service layer: persistence, pricing domains, gateways and side-effect collaborators."""
