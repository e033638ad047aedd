#!/usr/bin/env python3
import os
import argparse
import json

import requests

from app.client import NanoBananaApiClient, ApiClientError, MAX_WAIT, POLL_INTERVAL

API_BASE = os.getenv('API_BASE', 'http://127.0.0.1:8000')


def main():
    parser = argparse.ArgumentParser(description='Generate images from a text prompt')
    parser.add_argument('prompt', help='What to draw')
    parser.add_argument('--size', help='512x512, 768x768, 1024x768 or 1024x1024')
    parser.add_argument('--style', help='default, modern, minimalist, artistic or photorealistic')
    parser.add_argument('--aspect-ratio', help='1:1, 4:3, 16:9 or 9:16')
    parser.add_argument('--session', default=os.getenv('SESSION_ID'), help='Existing session id')
    parser.add_argument('--interval', type=float, default=POLL_INTERVAL, help='Seconds between polls')
    parser.add_argument('--max-wait', type=float, default=MAX_WAIT, help='Give up after this many seconds')

    args = parser.parse_args()

    client = NanoBananaApiClient(API_BASE, session_id=args.session)
    try:
        if not client.session_id:
            print(f'Session: {client.create_session()}')
        print(f'POST {API_BASE}/api/generate')
        result = client.run_generation(
            args.prompt,
            size=args.size,
            style=args.style,
            aspect_ratio=args.aspect_ratio,
            interval=args.interval,
            max_wait=args.max_wait,
            on_state=lambda s: print(f'  ... {s}'),
        )
    except (ApiClientError, requests.exceptions.RequestException) as e:
        print(f'Error: {e}')
        return 1

    print(json.dumps(result, indent=2))
    return 0 if result.get('status') == 'completed' else 1


if __name__ == '__main__':
    exit(main())
