"""Manion: 수학 문제 사진 → 풀이 영상 백엔드"""

__version__ = "1.0.0"
