#!/usr/bin/env python3
"""
Voice Keyboard
==============
Sing or hum into your microphone and play it back as a monophonic
keyboard. Each frame's pitch is detected with YIN, turned into note-on /
note-off events for a sine synth, and can be recorded as a sequence of
notes for later playback.

Dependencies: numpy, sounddevice, soundfile
Usage:        python voice_keyboard.py [--sensitivity 0.015] [--gain 2.5]
"""

import argparse
import functools
import logging
import sys
import threading
import time

import sounddevice as sd

from audio_devices import MicrophoneCapture, MonitorSynth, SessionPlayer, write_take
from pitch_detection import MIN_FRAME_LENGTH, freq_to_note, midi_to_note_name
from workstation import Mode, Workstation, WorkstationConfig

# ─── Terminal Colors ─────────────────────────────────────────────────────────
RST = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
CYAN = "\033[96m"
WHITE = "\033[97m"
CLR_LINE = "\033[2K"

STATUS_LINES = 6
SENSITIVITY_STEP = 0.002

MODE_LABELS = {
    Mode.IDLE: f"{DIM}READY{RST}",
    Mode.NOTE_INPUT: f"{CYAN}NOTE INPUT{RST}",
    Mode.VOICE_PASSTHROUGH: f"{YELLOW}VOICE{RST}",
    Mode.RECORDING: f"{RED}● RECORDING{RST}",
}

HELP = (
    f"  {BOLD}n{RST} note input   {BOLD}v{RST} voice   {BOLD}i{RST} idle   "
    f"{BOLD}r{RST} record on/off   {BOLD}m{RST} monitor on/off\n"
    f"  {BOLD}l{RST} list takes   {BOLD}p N{RST} play take N   {BOLD}a N{RST} play take N audio   "
    f"{BOLD}d N{RST} delete take N\n"
    f"  {BOLD}s{RST} stop playback   {BOLD}+/-{RST} sensitivity   {BOLD}g X{RST} mic gain   {BOLD}q{RST} quit"
)


# ─── Display ─────────────────────────────────────────────────────────────────

def volume_bar(level: float, width: int = 20) -> str:
    filled = min(width, int(level / 0.3 * width))
    return "█" * filled + "░" * (width - filled)


def render_status(ws: Workstation):
    """Redraw the status block at the top of the screen, keeping the cursor."""
    note = f"{DIM}--{RST}"
    tuning = ""
    if ws.active_midi is not None:
        note = f"{BOLD}{WHITE}{midi_to_note_name(ws.active_midi)}{RST}"
        detail = freq_to_note(ws.last_freq)
        if detail:
            tuning = f"   Freq: {CYAN}{ws.last_freq:.1f} Hz{RST}  {detail[2]:+.0f}¢"

    lines = [
        f"  {BOLD}🎤  Voice Keyboard{RST}   {MODE_LABELS[ws.mode]}"
        + (f"   {GREEN}▶ playing{RST}" if ws.is_playing_back else ""),
        f"  {DIM}{'━' * 56}{RST}",
        f"  Note: {note}{tuning}",
        f"  Volume: {volume_bar(ws.meter)}   Sensitivity: {ws.config.sensitivity * 1000:.0f}"
        f"   Gain: {ws.config.mic_gain:.1f}x   Monitor: {'on' if ws.config.monitor_enabled else 'off'}",
        f"  Takes: {len(ws.sessions)}",
        f"  {DIM}{'━' * 56}{RST}",
    ]

    out = ["\0337", "\033[H"]
    for line in lines:
        out.append(f"{CLR_LINE}{line}\n")
    out.append("\0338")
    sys.stdout.write("".join(out))
    sys.stdout.flush()


def print_sessions(ws: Workstation):
    if not ws.sessions:
        print(f"  {DIM}No takes recorded yet.{RST}")
        return
    for i, session in enumerate(ws.sessions, start=1):
        stamp = time.strftime("%H:%M:%S", time.localtime(session.timestamp))
        melody = " ".join(n.note for n in session.notes[:12])
        more = " …" if len(session.notes) > 12 else ""
        print(f"  {YELLOW}{i}{RST}  {stamp}  {len(session.notes):3d} notes  "
              f"{session.duration:5.1f}s  {DIM}{melody}{more}{RST}")


# ─── Command Loop ────────────────────────────────────────────────────────────

def _take_id(ws: Workstation, arg: str) -> str:
    index = int(arg) - 1
    if not 0 <= index < len(ws.sessions):
        raise IndexError(arg)
    return ws.sessions[index].id


def handle_command(ws: Workstation, raw: str) -> bool:
    """Apply one typed command. Returns False when the user quits."""
    parts = raw.split()
    if not parts:
        return True
    cmd, args = parts[0].lower(), parts[1:]

    if cmd == "q":
        return False
    elif cmd == "n":
        ws.set_mode(Mode.NOTE_INPUT)
    elif cmd == "v":
        ws.set_mode(Mode.VOICE_PASSTHROUGH)
    elif cmd == "i":
        ws.set_mode(Mode.IDLE)
    elif cmd == "r":
        ws.toggle_recording()
    elif cmd == "m":
        ws.set_monitor(not ws.config.monitor_enabled)
    elif cmd == "+":
        ws.set_sensitivity(ws.config.sensitivity + SENSITIVITY_STEP)
    elif cmd == "-":
        ws.set_sensitivity(max(0.001, ws.config.sensitivity - SENSITIVITY_STEP))
    elif cmd == "l":
        print_sessions(ws)
    elif cmd == "s":
        ws.stop_playback()
    elif cmd in ("p", "a") and args:
        try:
            ws.play_session(_take_id(ws, args[0]), "notes" if cmd == "p" else "audio")
        except (ValueError, IndexError, KeyError) as e:
            print(f"  {RED}Cannot play take {args[0]}: {e}{RST}")
    elif cmd == "d" and args:
        try:
            ws.delete_session(_take_id(ws, args[0]))
        except (ValueError, IndexError, KeyError) as e:
            print(f"  {RED}Cannot delete take {args[0]}: {e}{RST}")
    elif cmd == "g" and args:
        try:
            gain = float(args[0])
        except ValueError:
            print(f"  {RED}Gain must be a number, got {args[0]}{RST}")
        else:
            ws.set_mic_gain(max(0.0, gain))
    else:
        print(HELP)
    return True


def _display_loop(ws: Workstation, stop_event: threading.Event):
    while not stop_event.wait(0.1):
        render_status(ws)


# ─── Main ────────────────────────────────────────────────────────────────────

def _frame_size(raw: str) -> int:
    size = int(raw)
    if size < MIN_FRAME_LENGTH:
        raise argparse.ArgumentTypeError(
            f"frame size must be at least {MIN_FRAME_LENGTH} samples, got {size}")
    return size


def _parse_args(argv=None):
    defaults = WorkstationConfig()
    ap = argparse.ArgumentParser(description="Turn your voice into a monophonic keyboard.")
    ap.add_argument("--sensitivity", type=float, default=defaults.sensitivity,
                    help="RMS gate above which notes are played")
    ap.add_argument("--gain", type=float, default=defaults.mic_gain,
                    help="microphone gain multiplier")
    ap.add_argument("--frame-size", type=_frame_size, default=defaults.frame_size,
                    help=f"samples per analysis frame (at least {MIN_FRAME_LENGTH})")
    ap.add_argument("--sample-rate", type=int, default=defaults.sample_rate)
    ap.add_argument("--tick-rate", type=float, default=defaults.tick_rate)
    ap.add_argument("--gate-release-ratio", type=float, default=defaults.gate_release_ratio,
                    help="below 1.0 the gate closes only under sensitivity * ratio")
    ap.add_argument("--no-monitor", action="store_true", help="start with monitoring off")
    ap.add_argument("--sessions-dir", default=defaults.sessions_dir,
                    help="store recorded takes as WAV files here")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap.parse_args(argv)


def main(argv=None):
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = WorkstationConfig(
        sample_rate=args.sample_rate,
        frame_size=args.frame_size,
        tick_rate=args.tick_rate,
        sensitivity=args.sensitivity,
        mic_gain=args.gain,
        monitor_enabled=not args.no_monitor,
        gate_release_ratio=args.gate_release_ratio,
        sessions_dir=args.sessions_dir,
    )

    sys.stdout.write("\033[2J\033[H")  # clear
    sys.stdout.write("\n" * (STATUS_LINES + 1))
    print(HELP)
    print()

    capture = MicrophoneCapture(config.sample_rate, config.frame_size)
    synth = MonitorSynth(config.sample_rate, capture)
    asset_writer = None
    if config.sessions_dir:
        asset_writer = functools.partial(write_take, config.sessions_dir)
    ws = Workstation(config, capture, synth, SessionPlayer(), asset_writer)
    ws.session_listeners.append(
        lambda s: print(f"  {GREEN}✓ Take saved:{RST} {len(s.notes)} notes, {s.duration:.1f}s"))

    stop_event = threading.Event()
    driver = threading.Thread(target=ws.run, daemon=True)
    display = threading.Thread(target=_display_loop, args=(ws, stop_event), daemon=True)

    try:
        capture.start()
        synth.start()
        driver.start()
        display.start()
        while handle_command(ws, input("  > ")):
            pass
    except (KeyboardInterrupt, EOFError):
        pass
    except sd.PortAudioError as e:
        print(f"\n  {RED}❌ Audio error: {e}{RST}")
        print("  Make sure your microphone is connected and accessible.")
        sys.exit(1)
    finally:
        stop_event.set()
        if ws.is_recording:
            ws.stop_recording()
        ws.stop()
        if driver.is_alive():
            driver.join(timeout=1.0)
        synth.stop()
        capture.stop()

    print(f"\n  👋  Goodbye! {len(ws.sessions)} take(s) recorded this session.")


if __name__ == "__main__":
    main()
