import re
import time
import wave
import string
from pathlib import Path
from typing import Optional

import jiwer
from mutagen import File as MutagenFile, MutagenError

from .config import logger


def _normalize_for_wer(text: str) -> str:
    t = text.strip().lower()
    t = re.sub(r"[-–—_/]", " ", t)
    t = t.translate(str.maketrans('', '', string.punctuation))
    t = re.sub(r"\s+", " ", t).strip()
    return t


def _is_cjk(text: str) -> bool:
    return any("一" <= ch <= "鿿" or "぀" <= ch <= "ヿ" or "가" <= ch <= "힯" for ch in text)


def calculate_wer(reference: str, hypothesis: str) -> float:
    """Word error rate of a transcript; CJK text is scored per character."""
    ref_n = _normalize_for_wer(reference)
    hyp_n = _normalize_for_wer(hypothesis)
    if _is_cjk(ref_n):
        # Space-separated characters so jiwer scores them as words
        ref_n = " ".join(ch for ch in ref_n if not ch.isspace())
        hyp_n = " ".join(ch for ch in hyp_n if not ch.isspace())
    if not ref_n:
        return 1.0 if hyp_n else 0.0
    if not hyp_n:
        return 1.0
    return float(jiwer.wer(ref_n, hyp_n))


def get_audio_duration_seconds(audio_path: str) -> float:
    p = Path(audio_path)
    if not p.exists():
        logger.warning(f"Audio file does not exist: {audio_path}")
        return 0.0
    ext = p.suffix.lower()

    # Method 1: mutagen
    try:
        mf = MutagenFile(str(p))
        if mf is not None and hasattr(mf, 'info') and hasattr(mf.info, 'length'):
            duration = float(mf.info.length)
            if 0 < duration <= 86400:
                return duration
    except (MutagenError, OSError, ValueError) as e:
        logger.debug(f"mutagen could not read {audio_path}: {e}")

    # Method 2: wave
    if ext in ['.wav', '.wave']:
        try:
            with wave.open(str(p), 'rb') as wf:
                frames = wf.getnframes()
                rate = wf.getframerate()
                if rate > 0:
                    duration = frames / float(rate)
                    if 0 < duration <= 86400:
                        return duration
        except (wave.Error, EOFError, OSError) as e:
            logger.debug(f"wave could not read {audio_path}: {e}")

    # Method 3: size-based estimate
    file_size = p.stat().st_size
    if ext in ['.wav', '.wave']:
        duration = file_size / (44100 * 2 * 2)
    elif ext == '.flac':
        duration = file_size / (1024 * 1024 / 60.0)
    else:
        # ~128 kbps compressed audio
        duration = (file_size * 8) / 128000.0
    if 0 < duration <= 86400:
        return duration

    logger.warning(f"Unable to determine duration for {audio_path}")
    return 0.0


def calculate_rtf(latency: float, audio_duration: float, metric_name: str = "RTF") -> Optional[float]:
    if not audio_duration or audio_duration <= 0:
        logger.debug(f"{metric_name}: Invalid audio duration {audio_duration}")
        return None
    if latency < 0:
        logger.warning(f"{metric_name}: Negative latency {latency}")
        return None
    rtf = latency / audio_duration
    if rtf > 100:
        logger.warning(f"{metric_name}: Unusually high RTF ({rtf:.4f})")
    return float(rtf)


def get_precision_timer():
    return time.perf_counter
