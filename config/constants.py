"""
Centralized constants for ArticleFlow Publisher.
All magic numbers for rendering, caching and layout live here.
"""

# ===========================================
# DIAGRAM CACHE
# ===========================================
DIAGRAM_CACHE_NAMESPACE = 'mermaid'   # key prefix: mermaid-<hash8>
DIAGRAM_KEY_HASH_LENGTH = 8           # hex chars kept from the digest
DIAGRAM_CACHE_FIELD = 'diagram_images'
DIAGRAM_FENCE_LANGUAGE = 'mermaid'

# ===========================================
# RENDERING
# ===========================================
RENDER_TIMEOUT_SECONDS = 10.0         # per render attempt
RENDER_CONCURRENCY = 4                # diagrams resolved in parallel per document
MERMAID_INK_URL = 'https://mermaid.ink'
KROKI_URL = 'https://kroki.io'
MMDC_BINARY = 'mmdc'
FETCH_USER_AGENT = 'ArticleFlow-Publisher/1.0'
FETCH_TIMEOUT_SECONDS = 15.0

# ===========================================
# IMAGE CONVERSION
# ===========================================
SVG_DEFAULT_WIDTH = 800
SVG_DEFAULT_HEIGHT = 600
PRINT_SCALE = 2.0
WEB_SCALE = 1.5
WEB_QUALITY = 90

# ===========================================
# DOCUMENT (DOCX)
# ===========================================
DOCX_IMAGE_WIDTH_INCHES = 6.0
DOCX_CODE_FONT = 'Courier New'
DOCX_CODE_FONT_SIZE = 9
DOCX_CODE_SHADING = 'F5F5F5'
DOCX_TABLE_HEADER_SHADING = 'E7E6E6'
DOCX_TABLE_BORDER_COLOR = '999999'
DOCX_LINK_COLOR = '0563C1'

# ===========================================
# SLIDE DECK (PPTX), inches
# ===========================================
SLIDE_WIDTH_INCHES = 10.0
SLIDE_HEIGHT_INCHES = 5.625
SLIDE_FONT = 'Arial'
SLIDE_CODE_FONT = 'Courier New'
SLIDE_BODY_TOP = 1.5
SLIDE_CONTENT_BUDGET = 4.5            # stop adding text past this when a diagram is pending
SLIDE_TEXT_WIDTH_RATIO = 0.90
SLIDE_TEXT_WIDTH_RATIO_WITH_DIAGRAM = 0.45
SLIDE_BOUNDARY_LEVEL = 2
DEFAULT_THEME = 'classic'
DECK_FOOTER_TEXT = 'Created with ArticleFlow'

# ===========================================
# API / OUTPUT
# ===========================================
CONTENT_TYPE_DOCX = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'
CONTENT_TYPE_PPTX = 'application/vnd.openxmlformats-officedocument.presentationml.presentation'
CONTENT_TYPE_MARKDOWN = 'text/markdown; charset=utf-8'
DEFAULT_DECK_FILENAME = 'carousel-presentation'
DEFAULT_DOCUMENT_FILENAME = 'article'

# ===========================================
# LOGGING
# ===========================================
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = 'logs/articleflow.log'
LOG_MAX_SIZE_MB = 10
LOG_BACKUP_COUNT = 5
