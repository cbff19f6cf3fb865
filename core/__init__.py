"""
ArticleFlow Publisher core: markdown parsing, diagram resolution and document assembly.
"""
