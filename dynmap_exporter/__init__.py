# dynmap_exporter/__init__.py
# -*- coding: utf-8 -*-

"""Export a Dynmap view as one image, composed from its tile registry."""

__version__ = "0.3.0"
