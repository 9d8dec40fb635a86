"""Context-building modules for gathering upstream release data.

These modules fetch tags, releases and compare results from GitHub and
assemble them into the evidence bundle the model reasons about.
"""
