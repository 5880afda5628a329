from clinsynapse.tools.web_search_tool import WebSearchInput, web_search_tool

__all__ = [
    "WebSearchInput",
    "web_search_tool",
]
