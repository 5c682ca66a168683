"""Client-side list of image records, newest first."""

from typing import Any, Dict, List


class Gallery:

    def __init__(self):
        self.images: List[Dict[str, Any]] = []
        self.has_searched = False

    def add(self, record: Dict[str, Any]) -> None:
        """Prepends a freshly analyzed upload."""
        self.images.insert(0, record)
        self.has_searched = True

    def replace(self, records: List[Dict[str, Any]]) -> None:
        self.images = list(records)
        self.has_searched = True

    def clear(self) -> None:
        self.images = []
        self.has_searched = False

    def filter(self, keyword: str) -> List[Dict[str, Any]]:
        """Records with a keyword containing ``keyword`` (case-insensitive)."""
        needle = keyword.strip().lower()
        if not needle:
            return list(self.images)
        return [
            image for image in self.images
            if any(needle in kw for kw in _keywords(image))
        ]

    def render(self, keyword: str = "") -> str:
        images = self.filter(keyword) if keyword else self.images
        if not images:
            if self.has_searched:
                return "No results found\nTry a different search term or upload a new image."
            return ""

        lines = []
        for image in images:
            keywords = _keywords(image)
            lines.append(f"{image.get('imageId', '?')}  {image.get('fileName') or image.get('storageKey', '')}")
            lines.append(f"  tags: {', '.join(keywords) if keywords else '(none)'}")
            if image.get("imageUrl"):
                lines.append(f"  url:  {image['imageUrl']}")
        return "\n".join(lines)


def _keywords(image: Dict[str, Any]) -> List[str]:
    keywords = image.get("keywords")
    return keywords if isinstance(keywords, list) else []
