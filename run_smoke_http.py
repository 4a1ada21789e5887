"""Orchestrated HTTP smoke test.
Starts the API in a subprocess, polls for readiness, pushes one text item through
ingest -> transcribe -> search -> status, prints concise results, then shuts down.

Only the extracted-content path is exercised, so no managed-service credentials
are needed. Run from project root:
  python run_smoke_http.py --port 8000

Exit code 0 = success, non-zero = failure.
"""
from __future__ import annotations
import argparse, subprocess, sys, time, requests, os, signal
from pathlib import Path

ROOT = Path(__file__).parent.resolve()
BACKEND = ROOT / 'backend'

SAMPLE = ('Quantum entanglement links distant particles. Measurement on one '
          'constrains the other. Nobody fully agrees on what that means.')

def start_server(port: int, host: str) -> subprocess.Popen:
    env = os.environ.copy()
    existing = env.get('PYTHONPATH', '')
    env['PYTHONPATH'] = os.pathsep.join([str(BACKEND)] + ([existing] if existing else []))
    env.setdefault('DATABASE_URL', 'sqlite+aiosqlite:///./smoke.db')
    cmd = [sys.executable, 'run_api.py', '--port', str(port), '--host', host]
    return subprocess.Popen(cmd, cwd=str(ROOT), env=env)

def poll_ready(base: str, timeout: float = 30.0):
    start = time.time()
    last_err = None
    while time.time() - start < timeout:
        try:
            r = requests.get(base + '/')
            if r.status_code == 200:
                return True
        except requests.RequestException as e:
            last_err = e
        time.sleep(0.5)
    raise RuntimeError(f'Server not ready within {timeout}s: {last_err}')

def run_smoke(base: str):
    results = {}
    r = requests.get(base + '/')
    results['root'] = (r.status_code, r.json().get('service'))

    r = requests.post(base + '/upload', json={
        'title': f'Smoke {int(time.time())}',
        'extracted_content': SAMPLE,
        'tags': ['smoke'],
    })
    results['upload'] = (r.status_code, r.text[:200])
    if r.ok:
        video_id = r.json()['videoId']
        r_t = requests.post(base + '/transcribe', json={'videoId': video_id})
        results['transcribe'] = (r_t.status_code, r_t.json().get('wordCount'))
        r_s = requests.get(base + '/search', params={'q': 'entanglement'})
        results['search'] = (r_s.status_code, r_s.json().get('total'))
    r = requests.get(base + '/status')
    results['status'] = (r.status_code, r.json().get('statistics'))
    return results

def main():
    ap = argparse.ArgumentParser()
    ap.add_argument('--host', default='127.0.0.1')
    ap.add_argument('--port', type=int, default=8000)
    ap.add_argument('--keep', action='store_true', help='Leave server running after tests')
    args = ap.parse_args()

    base = f'http://{args.host}:{args.port}'
    print(f'[INFO] Starting server on {base}')
    proc = start_server(args.port, args.host)
    try:
        poll_ready(base)
        print('[INFO] Server ready, executing smoke test...')
        results = run_smoke(base)
        print('\n===== SMOKE RESULTS =====')
        for k, v in results.items():
            print(f'{k.upper()}:', v[0], '->', v[1])
        if any(code != 200 for code, _ in results.values()):
            raise SystemExit(2)
        print('[INFO] Smoke test completed successfully.')
    finally:
        if not args.keep:
            if proc.poll() is None:
                print('[INFO] Terminating server subprocess...')
                if os.name == 'nt':
                    proc.terminate()
                else:
                    proc.send_signal(signal.SIGINT)
                try:
                    proc.wait(timeout=10)
                except subprocess.TimeoutExpired:
                    proc.kill()
        else:
            print('[INFO] --keep specified, leaving server running (PID', proc.pid, ')')

if __name__ == '__main__':
    main()
