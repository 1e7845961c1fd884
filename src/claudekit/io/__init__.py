"""File system I/O for manifests, release trees, checksums and settings."""
