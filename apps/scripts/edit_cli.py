#!/usr/bin/env python3
import os
import argparse
import json

import requests

from app.client import NanoBananaApiClient, ApiClientError, MAX_WAIT, POLL_INTERVAL

API_BASE = os.getenv('API_BASE', 'http://127.0.0.1:8000')


def main():
    parser = argparse.ArgumentParser(description='Edit images with a text instruction')
    parser.add_argument('--images', nargs='+', required=True, help='JPEG/PNG files (1-10)')
    parser.add_argument('--instruction', required=True, help='Edit prompt')
    parser.add_argument('--style', help='Style name')
    parser.add_argument('--aspect-ratio', help='1:1, 4:3, 16:9 or 9:16')
    parser.add_argument('--session', default=os.getenv('SESSION_ID'), help='Existing session id')
    parser.add_argument('--max-wait', type=float, default=MAX_WAIT, help='Give up after this many seconds')

    args = parser.parse_args()

    client = NanoBananaApiClient(API_BASE, session_id=args.session)
    print(f'POST {API_BASE}/api/edit')
    print(f'Editing {len(args.images)} image(s)')

    try:
        if not client.session_id:
            client.create_session()
        result = client.run_edit(
            [p.replace('\\', '/') for p in args.images],
            args.instruction,
            style=args.style,
            aspect_ratio=args.aspect_ratio,
            interval=POLL_INTERVAL,
            max_wait=args.max_wait,
            on_state=lambda s: print(f'  ... {s}'),
        )
    except (ApiClientError, requests.exceptions.RequestException, OSError) as e:
        print(f'Error: {e}')
        return 1

    print(json.dumps(result, indent=2))
    return 0 if result.get('status') == 'completed' else 1


if __name__ == '__main__':
    exit(main())
