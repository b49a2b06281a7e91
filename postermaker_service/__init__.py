"""
PosterMaker background-removal service package.

Exposes the matte post-processing and compositing primitives, the local
U^2-Net pipeline, the remove.bg proxy client and the FastAPI application.
"""
