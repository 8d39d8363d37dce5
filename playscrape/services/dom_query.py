"""XPath query facade handed to site extract functions."""

import logging

from lxml import etree, html

logger = logging.getLogger(__name__)


def _text_from_node(node) -> str | None:
    if isinstance(node, (str, int, float, bool)):
        # Text nodes, attribute values and XPath function results
        return str(node)
    if isinstance(node, html.HtmlElement):
        return node.text_content()
    return None


class DomQuery:
    """Parsed page content with XPath helpers.

    ``url`` and ``content`` are the page the content came from, so extract
    functions get everything through a single argument::

        def extract(doc):
            return {"title": doc.query_text("//h1"), "url": doc.url}
    """

    def __init__(self, content: str, url: str = ""):
        self.content = content
        self.url = url
        try:
            self.dom = html.document_fromstring(content)
        except (etree.ParserError, ValueError) as e:
            logger.debug(f"Empty or unparseable document for {url}: {e}")
            self.dom = None

    def _select(self, query: str, root=None) -> list:
        context = root if root is not None else self.dom
        if context is None:
            return []
        result = context.xpath(query)
        return result if isinstance(result, list) else [result]

    def query(self, query: str, root=None) -> html.HtmlElement | None:
        """First element matching ``query``, or None."""
        for node in self._select(query, root):
            return node if isinstance(node, html.HtmlElement) else None
        return None

    def query_all(self, query: str, root=None) -> list[html.HtmlElement]:
        """Every element matching ``query``."""
        return [node for node in self._select(query, root) if isinstance(node, html.HtmlElement)]

    def query_text(self, query: str, root=None) -> str | None:
        """Text of the first match (element text, attribute or string result)."""
        for node in self._select(query, root):
            return _text_from_node(node)
        return None

    def query_all_text(self, query: str, root=None) -> list[str]:
        texts = (_text_from_node(node) for node in self._select(query, root))
        return [text for text in texts if text is not None]
