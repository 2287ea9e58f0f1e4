"""Listen to a Kalze channel and print every event.

    pip install kalze-client

    python examples/listen_channel.py --key wpk_live_... --subdomain rojo-azul-casa-gato
    python examples/listen_channel.py --key ... --subdomain ... --channel chat --say hi
"""

import argparse
import asyncio
import logging
import signal

from kalze_client import Kalze


async def main(key: str, subdomain: str, channel_name: str, say: str | None, debug: bool):
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    with Kalze(key, subdomain, debug=debug) as client:
        channel = client.subscribe(channel_name)

        def on_connected(info):
            print(f"Connected to {channel_name} (socket {info.socket_id})")
            if say:
                channel.trigger({"text": say})

        channel.on("connected", on_connected)
        channel.on("reconnecting", lambda r: print(f"Reconnecting in {r.delay:.1f}s (attempt {r.attempt})"))
        channel.on("reconnect:failed", lambda _: stop.set())
        channel.on("error", lambda err: print(f"Error: {err.message}"))
        channel.on("*", lambda env: print(f"[{env.event}] {env.data}"))

        print("Listening for events... (Ctrl+C to stop)\n")
        await stop.wait()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Kalze channel listener")
    parser.add_argument("--key", required=True, help="Public API key (wpk_live_*)")
    parser.add_argument("--subdomain", required=True)
    parser.add_argument("--channel", default="general")
    parser.add_argument("--say", default=None, help="Trigger a client event once connected")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    if args.debug:
        logging.basicConfig(level=logging.DEBUG)
    asyncio.run(main(args.key, args.subdomain, args.channel, args.say, args.debug))
