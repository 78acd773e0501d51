import json
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer

from .analysis.ratelimit import RateLimiter
from .analysis.vision import create_vision_classifier, get_vision_status
from .config import Settings
from .fingerprint.distance import FingerprintMismatchError, hamming_distance, similarity
from .fingerprint.fetch import ImageFetcher
from .fingerprint.hash import FingerprintError, fingerprint_file
from .logging import get_logger, set_package_level
from .output.report import write_report_json
from .pipeline import InvalidRequestError, PhotoAnalyzer, parse_request

app = typer.Typer(help="burstsift – duplicate and burst-shot analysis for job-site photos", no_args_is_help=True)


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug detail from every stage"),
) -> None:
    if verbose:
        set_package_level("DEBUG")


def safe_echo(message: str) -> None:
    """Echo message with ASCII fallback for consoles without Unicode support."""
    try:
        typer.echo(message)
    except UnicodeEncodeError:
        fallback_message = (
            message.replace("✅", "[OK]")
            .replace("📷", "[IMG]")
            .replace("🔄", "[DUP]")
            .replace("⚡", "[BURST]")
            .replace("🧭", "[SIM]")
            .replace("✨", "[UNIQ]")
            .replace("⚠️", "[WARN]")
            .replace("📋", "[LIST]")
        )
        typer.echo(fallback_message.encode("ascii", "replace").decode("ascii"))


@app.command()
def analyze(
    request_path: Path = typer.Argument(..., exists=True, readable=True, help="JSON request with the photo batch"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Where to write the JSON report"),
    vision: bool = typer.Option(True, "--vision/--no-vision", help="Use the configured vision service when available"),
    fingerprint_images: bool = typer.Option(False, "--fingerprint-images/--no-fingerprint-images", help="Recompute fingerprints from image pixels"),
    gps_epsilon: Optional[float] = typer.Option(None, help="Degrees within which GPS points count as the same spot"),
    burst_window: Optional[float] = typer.Option(None, help="Seconds within which photos count as a burst"),
    proximity_window: Optional[float] = typer.Option(None, help="Seconds within which photos are compared at all"),
) -> None:
    """
    Analyze a batch of photos for duplicates, burst shots and similar compositions.

    Thresholds default to the BURSTSIFT_* environment variables, then to the
    built-in values; options given here take precedence.
    """
    logger = get_logger(__name__)

    try:
        settings = Settings.from_env()
        overrides = {
            "gps_epsilon": gps_epsilon,
            "burst_window_seconds": burst_window,
            "proximity_window_seconds": proximity_window,
        }
        settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None}).validate()
    except ValueError as exc:
        logger.error(f"Invalid configuration: {exc}")
        raise typer.Exit(code=2) from exc

    try:
        payload = json.loads(request_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error(f"Failed to read request {request_path}: {exc}")
        raise typer.Exit(code=1) from exc

    try:
        photos = parse_request(payload, settings)
    except InvalidRequestError as exc:
        logger.error(f"Invalid request: {exc}")
        raise typer.Exit(code=2) from exc

    rate_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)
    classifier = create_vision_classifier(settings, rate_limiter) if vision else None
    if vision and classifier is None:
        logger.info("No vision endpoint configured, using heuristics only")
    logger.info(f"Vision status: {get_vision_status(settings, rate_limiter)}")

    fetcher = ImageFetcher() if fingerprint_images else None
    analyzer = PhotoAnalyzer(settings=settings, classifier=classifier, fetcher=fetcher)
    report = analyzer.analyze(photos)

    if out is not None:
        report_path = write_report_json(report, out)
        logger.info(f"Wrote report to {report_path}")
    else:
        typer.echo(json.dumps(report.to_dict(), indent=2))

    summary = report.summary
    safe_echo("\n✅ Analysis complete!")
    safe_echo(f"📷 Photos analyzed: {len(report.results)} ({report.analysis_method})")
    safe_echo(f"🔄 Duplicates: {summary['duplicatesFound']}")
    safe_echo(f"⚡ Burst shots: {summary['burstShotsFound']}")
    safe_echo(f"🧭 Similar: {summary['similarFound']}")
    safe_echo(f"✨ Unique: {summary['uniquePhotos']}")
    safe_echo(f"📋 Groups: {len(report.groups)}, archive candidates: {summary['archiveCandidates']}")
    if report.degraded_photo_ids:
        safe_echo(f"⚠️  Degraded analyses: {', '.join(report.degraded_photo_ids)}")
    for group in report.groups:
        safe_echo(f"   {group.id} [{group.type.value}] {', '.join(group.photo_ids)}: {group.recommendation}")


@app.command()
def fingerprint(
    images: List[Path] = typer.Argument(..., help="Image files to fingerprint"),
) -> None:
    """Print the 64-bit difference hash of each image."""
    logger = get_logger(__name__)
    failed = 0
    for image_path in images:
        try:
            typer.echo(f"{fingerprint_file(image_path)}  {image_path}")
        except FingerprintError as exc:
            logger.error(str(exc))
            failed += 1
    if failed:
        raise typer.Exit(code=1)


@app.command()
def compare(
    first: Path = typer.Argument(..., help="First image"),
    second: Path = typer.Argument(..., help="Second image"),
) -> None:
    """Print Hamming distance and similarity between two images."""
    logger = get_logger(__name__)
    try:
        a = fingerprint_file(first)
        b = fingerprint_file(second)
        distance = hamming_distance(a, b)
        score = similarity(a, b)
    except (FingerprintError, FingerprintMismatchError) as exc:
        logger.error(str(exc))
        raise typer.Exit(code=1) from exc

    verdict = "near-identical" if score >= Settings().similarity_threshold else "different"
    typer.echo(f"distance={distance} similarity={score:.3f} ({verdict})")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
