"""Grant services: storage, identity, caching and the lifecycle state machine."""
