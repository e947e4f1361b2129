import argparse
import sys
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from ytscribe.config import settings
from ytscribe.core.exceptions import BotDetectionError, BusyError, PipelineTimeoutError, TranscriptError
from ytscribe.models.progress import ProgressUpdate
from ytscribe.models.transcript import TranscriptSource
from ytscribe.services.pipeline import get_pipeline
from ytscribe.utils.logger import logger, set_level

console = Console()

SOURCE_LABELS = {
    TranscriptSource.PLATFORM_CAPTIONS: "YouTube captions",
    TranscriptSource.LOCAL_TRANSCRIPTION: "Whisper transcription",
}

def format_time(ms: int) -> str:
    m, s = divmod(ms // 1000, 60)
    h, m = divmod(m, 60)
    if h > 0:
        return f"{h:02d}:{m:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"

def render_result(result, limit: int):
    transcript = result.transcript
    console.print(Panel(
        f"[bold blue]{result.title}[/bold blue]\n[italic]{result.author}[/italic]\n"
        f"[dim]{SOURCE_LABELS[transcript.source]} · {len(transcript.segments)} segments[/dim]",
        title="Video Info",
    ))

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Time", style="cyan", width=10)
    table.add_column("Speaker", style="green")
    table.add_column("Text", style="white")
    shown = transcript.segments if limit <= 0 else transcript.segments[:limit]
    for seg in shown:
        table.add_row(format_time(seg.start_ms), seg.speaker or "", seg.text)
    console.print(table)
    if len(shown) < len(transcript.segments):
        console.print(f"[dim]... {len(transcript.segments) - len(shown)} more segments (use --limit 0 to show all)[/dim]")

def main():
    parser = argparse.ArgumentParser(description="Fetch a time-coded YouTube transcript")
    parser.add_argument("url", nargs="?", help="YouTube video URL")
    parser.add_argument("--url", dest="url", help="YouTube video URL")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--limit", type=int, default=50, help="Segments to display (0 = all)")
    parser.add_argument("--model", help="Whisper model for local transcription")
    parser.add_argument("--no-diarize", action="store_true", help="Skip speaker diarization even if HF_TOKEN is set")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")

    args = parser.parse_args()

    if not getattr(args, "url", None):
        parser.print_help()
        console.print("[red]Missing URL.[/red] Provide positional URL or --url.")
        sys.exit(2)

    args.url = args.url.strip().strip('`').strip('"').strip("'").strip()

    if args.verbose:
        set_level("DEBUG")

    # Override settings
    if args.model:
        settings.WHISPER_MODEL = args.model
    if args.no_diarize:
        settings.HF_TOKEN = None

    pipeline = get_pipeline()

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True
        ) as progress:
            task = progress.add_task(description="Fetching video info & transcript...", total=None)

            def on_progress(update: ProgressUpdate):
                progress.update(task, description=f"{update.status} ({update.percent}%)")

            result = pipeline.fetch_video(args.url, progress=on_progress)
            progress.update(task, completed=True)

        if args.json:
            print(result.model_dump_json(indent=2))
        else:
            render_result(result, args.limit)

    except BusyError as e:
        console.print(f"[bold yellow]Busy:[/bold yellow] {e}")
        sys.exit(3)
    except BotDetectionError as e:
        console.print(f"[bold red]Blocked by YouTube:[/bold red] {e}")
        sys.exit(4)
    except PipelineTimeoutError as e:
        console.print(f"[bold red]Timed out:[/bold red] {e}")
        sys.exit(5)
    except TranscriptError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[bold red]Unexpected error:[/bold red] {e}")
        logger.debug("Unhandled exception", exc_info=True)
        sys.exit(1)

if __name__ == "__main__":
    main()
