"""Domain services: manifests, guard, PIN approval, guarded invoice operations, audit."""
