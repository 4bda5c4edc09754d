"""공용 유틸리티 함수.

프로젝트 전반에서 사용되는 작은 헬퍼 함수들을 모아둔다.
"""


def truncate_text(text: str, max_len: int = 20) -> str:
    """긴 문자열을 앞부분만 남기고 말줄임표를 붙인다.

    PostgreSQL interval 문자열(``"12 days, 3:04:05.123456"``)처럼
    메뉴 한 줄에 넣기에 긴 값을 줄이는 데 사용한다.

    Args:
        text: 원본 문자열.
        max_len: 남길 최대 길이 (기본 20자).

    Returns:
        잘린 문자열. 예: ``"12 days, 3:04:05.123..."``.
    """
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."

