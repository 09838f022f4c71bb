"""CLI for voice quality analysis."""

import argparse
import json
import logging
import sys
import time

import numpy as np

from voice_quality.audio.config import load_config
from voice_quality.audio.frames import AnalyserNode, iter_frames
from voice_quality.audio.source import handle_for_device, list_input_devices
from voice_quality.errors import VoiceQualityError
from voice_quality.logging_utils import setup_logging
from voice_quality.pipeline import EvaluationSession, VoiceQualityAnalyzer


def _read_wav(path: str) -> tuple[int, np.ndarray]:
    """Read a WAV file as mono float32 in [-1, 1]."""
    import scipy.io.wavfile as wavfile

    sr, audio = wavfile.read(path)
    if audio.dtype == np.int16:
        audio = audio.astype(np.float32) / 32768.0
    elif audio.dtype == np.int32:
        audio = audio.astype(np.float32) / 2147483648.0
    elif audio.dtype == np.uint8:
        audio = (audio.astype(np.float32) - 128.0) / 128.0
    else:
        audio = audio.astype(np.float32)
    if audio.ndim > 1:
        audio = audio.mean(axis=1)
    return int(sr), audio


def _print_report(report) -> int:
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.ok else 2


def cmd_devices(_args: argparse.Namespace) -> int:
    for device in list_input_devices():
        print(f"{device['index']:>3}  {device.get('name', '')}  (inputs: {device.get('max_input_channels', 0)})")
    return 0


def cmd_analyze(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    sr, audio = _read_wav(args.file)
    if sr != config.sample_rate:
        config = config.with_overrides(sample_rate=sr)

    analyzer = VoiceQualityAnalyzer(config, run_loop=False)
    analyzer.set_collecting_samples(True)
    frames = iter_frames(audio, AnalyserNode(config), hop_sec=config.frame_interval_sec)
    analyzer.run_frames(frames)
    return _print_report(analyzer.get_report())


def cmd_live(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    analyzer = VoiceQualityAnalyzer(config)
    session = EvaluationSession(analyzer)

    print(f"Waiting for microphone (up to {config.device_timeout_sec:.0f}s)...", file=sys.stderr)
    if not session.on_connected(lambda: handle_for_device(args.device)):
        print("Microphone not available.", file=sys.stderr)
        return 1

    session.set_phase_active(True)
    print(f"Analyzing for {args.duration}s, speak now...", file=sys.stderr)
    try:
        time.sleep(args.duration)
    except KeyboardInterrupt:
        pass
    finally:
        session.set_phase_active(False)
        session.on_disconnected()

    return _print_report(session.finish())


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="voice-quality",
        description="Score voice clarity, volume, tone and pace of spoken responses",
    )
    parser.add_argument("--config", default=None, help="YAML analyzer configuration")
    parser.add_argument("--log-dir", default=None, help="Write rotating logs to this directory")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("devices", help="List audio input devices")

    analyze_cmd = sub.add_parser("analyze", help="Score a recorded WAV file")
    analyze_cmd.add_argument("file", help="Path to a WAV file")

    live_cmd = sub.add_parser("live", help="Score live microphone input")
    live_cmd.add_argument("--duration", type=float, default=30.0, help="Seconds to analyze (default: 30)")
    live_cmd.add_argument("--device", default=None, help="Input device name substring")

    args = parser.parse_args()
    setup_logging(args.log_dir, level=logging.DEBUG if args.verbose else logging.INFO)

    handlers = {"devices": cmd_devices, "analyze": cmd_analyze, "live": cmd_live}
    try:
        code = handlers[args.command](args)
    except VoiceQualityError as exc:
        print(f"error: {exc}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
