import sys
import os

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ytscribe.cli import format_time
from ytscribe.config import Settings
from ytscribe.models.transcript import TranscriptSegment, to_ms
from ytscribe.services.pipeline import TranscriptPipeline

def test_imports():
    print("Imports successful")

def test_settings_defaults():
    s = Settings(_env_file=None)
    assert s.WHISPER_BACKEND == "auto"
    assert s.WHISPER_MODEL == "base"
    assert s.PIPELINE_TIMEOUT == 600.0

def test_to_ms_rounds():
    assert to_ms(1.2346) == 1235
    assert to_ms(0.25) == 250
    assert TranscriptSegment(text="a", start_ms=to_ms(2.5), duration_ms=0).start_ms == 2500

def test_format_time():
    assert format_time(61_000) == "01:01"
    assert format_time(3_725_999) == "01:02:05"

def test_pipeline_init():
    pipeline = TranscriptPipeline(Settings(REAP_ORPHANS_ON_STARTUP=False, WHISPER_CLOUD_API_KEY=None), personas=[])
    assert not pipeline.is_busy()
    print("Pipeline initialized")

if __name__ == "__main__":
    test_imports()
    test_pipeline_init()
