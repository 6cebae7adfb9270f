"""
Synthesis core: voice resolution, pricing, content-addressed caching,
provider chunking and provider adapters.
"""
