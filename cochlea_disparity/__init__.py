"""
Disparity-through-time analysis of odontocete cochlea shape.

This package provides tools for:
- Procrustes superimposition of 3D landmarks with sliding semilandmarks
- Brownian-motion ancestral state estimation on a dated phylogeny
- Principal component ordination of tips and nodes
- Time-binning and time-slicing under six branch models
- Rarefied disparity, pairwise subset comparisons and metric validation
"""

__version__ = "0.1.0"
