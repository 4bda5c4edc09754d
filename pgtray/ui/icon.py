"""트레이 아이콘 이미지 생성 (Pillow)."""

from __future__ import annotations

from PIL import Image, ImageDraw

ICON_SIZE = 64

# 연결 상태별 색상 (RGB)
CONNECTED_COLOR = (0, 100, 200)
DISCONNECTED_COLOR = (128, 128, 128)
OUTLINE_COLOR = (255, 255, 255)


def draw_icon(connected: bool, size: int = ICON_SIZE) -> Image.Image:
    """연결 상태를 나타내는 원형 아이콘 생성.

    Args:
        connected: True면 파란색, False면 회색
        size: 아이콘 한 변 크기 (px)

    Returns:
        투명 배경 RGBA 이미지
    """
    image = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    margin = size // 8
    bbox = (margin, margin, size - margin, size - margin)
    fill = CONNECTED_COLOR if connected else DISCONNECTED_COLOR
    draw.ellipse(bbox, fill=fill, outline=OUTLINE_COLOR, width=max(1, size // 32))
    return image
