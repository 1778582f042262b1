"""Bird's Eye outline — live hierarchical symbol outlines for C/C++ buffers."""
