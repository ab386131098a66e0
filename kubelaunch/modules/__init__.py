"""Core modules: models, persistence, drivers, bootstrapper and the start sequence."""
