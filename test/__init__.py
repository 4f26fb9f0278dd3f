# Test package for dynmap_exporter.
