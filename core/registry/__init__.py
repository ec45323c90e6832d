"""Model registry.

Responsibilities:
- Load all manifest YAML files from the registry directory
- Validate schema (``ModelManifest``)
- Provide lookup by model id
- Verify checksum (unless skipped)
- Carry seed thinking marker rules per model
"""
