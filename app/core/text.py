"""Plain text summary to HTML."""

import html
import re

_re_link = re.compile(r'https?://[^\s"]+[\w/)]')
_re_quote = re.compile(r"&gt; (.*)\n")
_re_newlines = re.compile(r"\n+")
_re_lq = re.compile(r'"[^.\s]')
_re_ap = re.compile(r"\w'")
_re_ls = re.compile(r"'\w")


def prettyquotes(s: str) -> str:
    """Replace straight quotes with curly ones."""
    s = _re_lq.sub(lambda m: "“" + m.group(0)[1:], s)
    s = s.replace('"', "”")
    s = _re_ap.sub(lambda m: m.group(0)[:-1] + "’", s)
    s = _re_ls.sub(lambda m: "‘" + m.group(0)[1:], s)
    return s.replace("'", "’")


def _linkify(match: re.Match) -> str:
    url = match.group(0)
    suffix = ""
    # trailing ")" without an opening one belongs to the sentence
    if url.endswith(")") and "(" not in url:
        url = url[:-1]
        suffix = ")"
    if url.endswith("."):
        url = url[:-1]
        suffix = "." + suffix
    return f'<a href="{url}">{url}</a>{suffix}'


def htmlify(s: str) -> str:
    s = s.replace("\r", "")
    s = prettyquotes(s)
    s = html.escape(s, quote=False)
    s = _re_link.sub(_linkify, s)
    s = _re_quote.sub(r"<blockquote>&gt; \1</blockquote>\n", s)
    s = s.replace("</blockquote>\n<blockquote>", "\n")
    s = _re_newlines.sub(lambda m: "\n<p>" if len(m.group(0)) > 1 else "<br>\n", s)
    return s
