"""HTTP surface for DocQA."""
