# dynmap_exporter/core/__init__.py
# -*- coding: utf-8 -*-

"""UI-agnostic export core."""
