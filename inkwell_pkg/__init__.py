"""
Inkwell - a small static blog generator.

Inkwell renders Markdown articles with YAML front matter through Jinja2
templates. Articles only reach a production build once they are marked
``published: true`` and their date has arrived; preview runs show everything.
"""

__version__ = "1.0.0"

from .core import Inkwell, ContentLoader
from .visibility import BuildContext, ContentItem, select_published, select_latest

__all__ = ['Inkwell', 'ContentLoader', 'BuildContext', 'ContentItem', 'select_published', 'select_latest']
