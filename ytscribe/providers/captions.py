"""Caption XML decoding.

YouTube serves two timedtext schemas:

* ``<timedtext format="3">`` (srv3, what the ANDROID client gets): ``<p t="ms" d="ms">``
  entries whose text may be split over nested ``<s>`` elements.
* the classic schema (WEB): ``<text start="sec" dur="sec">`` entries whose text
  is HTML-escaped, frequently twice (``&amp;#39;``).
"""
import html
import re
import xml.etree.ElementTree as ET
from typing import List, Optional
from ytscribe.core.exceptions import CaptionParseError
from ytscribe.models.transcript import TranscriptSegment, to_ms

TAG_RE = re.compile(r"<[^>]+>")


def clean_caption_text(raw: str) -> str:
    text = raw
    # Entities survive one round of XML decoding when double-escaped
    for _ in range(2):
        decoded = html.unescape(text)
        if decoded == text:
            break
        text = decoded
    return TAG_RE.sub("", text).replace("\n", " ").strip()


def is_srv3(root: ET.Element) -> bool:
    return root.tag == "timedtext" and root.attrib.get("format") == "3"


def _segment(text: str, start_ms: int, duration_ms: int) -> Optional[TranscriptSegment]:
    if not text:
        return None
    return TranscriptSegment(text=text, start_ms=max(start_ms, 0), duration_ms=max(duration_ms, 0))


def _parse_srv3(root: ET.Element) -> List[TranscriptSegment]:
    segments = []
    for node in root.iter("p"):
        t = node.attrib.get("t")
        d = node.attrib.get("d")
        if t is None or d is None:
            continue
        try:
            start_ms, duration_ms = int(t), int(d)
        except ValueError:
            continue
        seg = _segment(clean_caption_text("".join(node.itertext())), start_ms, duration_ms)
        if seg:
            segments.append(seg)
    return segments


def _parse_classic(root: ET.Element) -> List[TranscriptSegment]:
    segments = []
    for node in root.iter("text"):
        start = node.attrib.get("start")
        dur = node.attrib.get("dur")
        if start is None or dur is None:
            continue
        try:
            start_ms, duration_ms = to_ms(float(start)), to_ms(float(dur))
        except ValueError:
            continue
        seg = _segment(clean_caption_text("".join(node.itertext())), start_ms, duration_ms)
        if seg:
            segments.append(seg)
    return segments


def parse_caption_xml(xml: str) -> List[TranscriptSegment]:
    """Parse caption XML of either schema into segments, in document order."""
    try:
        root = ET.fromstring(xml.strip())
    except ET.ParseError as e:
        raise CaptionParseError(f"Malformed caption XML: {e}") from e
    if is_srv3(root):
        return _parse_srv3(root)
    return _parse_classic(root)
