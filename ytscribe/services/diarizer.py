"""Optional speaker diarization with pyannote.audio."""
import json
import os
from typing import Dict, List, Sequence
from ytscribe.config import Settings, settings as default_settings
from ytscribe.core.exceptions import CommandError, DiarizationError
from ytscribe.models.transcript import DiarizationSegment, TranscriptSegment
from ytscribe.utils.logger import logger
from ytscribe.utils.process import Runner, run_command

# The token travels in the child's environment, never on the command line.
DIARIZE_SCRIPT = (
    "import json, os, sys;"
    "from pyannote.audio import Pipeline;"
    "audio, out_path, model = sys.argv[1:4];"
    "pipeline = Pipeline.from_pretrained(model, use_auth_token=os.environ['HF_TOKEN']);"
    "result = pipeline(audio);"
    "rows = [{'speaker': s, 'start': t.start, 'end': t.end} for t, _, s in result.itertracks(yield_label=True)];"
    "f = open(out_path, 'w', encoding='utf-8');"
    "json.dump(rows, f);"
    "f.close()"
)


def merge_speakers(
    segments: Sequence[TranscriptSegment],
    turns: Sequence[DiarizationSegment],
) -> List[TranscriptSegment]:
    """Label each segment with the speaker turn it overlaps most.

    Equal overlaps keep the earlier turn (first in diarization order).
    Raw labels become "Speaker 1", "Speaker 2", ... in order of first use.
    Segments overlapping no turn are returned unlabelled.
    """
    display: Dict[str, str] = {}
    merged = []
    for seg in segments:
        start = seg.start_ms / 1000.0
        end = start + seg.duration_ms / 1000.0
        best, best_overlap = None, 0.0
        for turn in turns:
            overlap = min(end, turn.end) - max(start, turn.start)
            if overlap > best_overlap:
                best, best_overlap = turn, overlap
        if best is None:
            merged.append(seg)
            continue
        if best.speaker not in display:
            display[best.speaker] = f"Speaker {len(display) + 1}"
        merged.append(seg.model_copy(update={"speaker": display[best.speaker]}))
    return merged


class Diarizer:
    def __init__(self, settings: Settings = None, runner: Runner = run_command):
        self.settings = settings or default_settings
        self.runner = runner

    @property
    def enabled(self) -> bool:
        return bool((self.settings.HF_TOKEN or "").strip())

    def run(self, audio_path: str, output_dir: str, timeout: float) -> List[DiarizationSegment]:
        os.makedirs(output_dir, exist_ok=True)
        out_path = os.path.join(output_dir, "diarization.json")
        env = dict(os.environ, HF_TOKEN=self.settings.HF_TOKEN.strip())
        try:
            self.runner(
                [self.settings.PYTHON_BIN, "-c", DIARIZE_SCRIPT, audio_path, out_path, self.settings.DIARIZATION_MODEL],
                timeout=timeout,
                env=env,
                label="pyannote diarization",
            )
        except CommandError as e:
            raise DiarizationError(f"Diarization failed: {e}") from e
        if not os.path.isfile(out_path):
            raise DiarizationError(f"Diarization produced no output (expected {out_path})")
        with open(out_path, "r", encoding="utf-8") as f:
            rows = json.load(f)
        return [DiarizationSegment(**row) for row in rows]

    def diarize(
        self,
        segments: List[TranscriptSegment],
        audio_path: str,
        output_dir: str,
        timeout: float,
    ) -> List[TranscriptSegment]:
        """Return speaker-labelled segments; on any failure, the input unchanged."""
        try:
            turns = self.run(audio_path, output_dir, timeout)
            merged = merge_speakers(segments, turns)
            speakers = {s.speaker for s in merged if s.speaker}
            logger.info(f"Diarization complete: {len(turns)} turns, {len(speakers)} speaker(s)")
            return merged
        except Exception as e:
            logger.warning(f"Diarization failed, keeping transcript without speakers: {e}")
            return segments
