"""
Change detection components: watermark store, source reader, audit sink
and the poll cycle that ties them together.
"""
