"""
chunkread - chunk-aware parallel table reader
"""
