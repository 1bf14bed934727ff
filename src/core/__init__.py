"""
Core Application Logic
======================

This package contains the foundational logic of ImageTagger: configuration
constants, settings dataclasses, the metadata persistence engine
(``src.core.metadata``) and the MetadataService facade in front of it.
"""
