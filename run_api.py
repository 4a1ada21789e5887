"""Convenience launcher for the pipeline API from project root.
Usage:
  python run_api.py --port 8000 --host 127.0.0.1 [--reload] [--log-level debug]

Ensures the backend/ directory is added to sys.path so 'transcription_pipeline' resolves
without an editable install.
"""
import sys, argparse, pathlib, uvicorn

ROOT = pathlib.Path(__file__).parent.resolve()
BACKEND_DIR = ROOT / 'backend'
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

def main():
  parser = argparse.ArgumentParser()
  parser.add_argument('--host', default='127.0.0.1')
  parser.add_argument('--port', type=int, default=8000)
  parser.add_argument('--reload', action='store_true')
  parser.add_argument('--log-level', default='info')
  args = parser.parse_args()

  uvicorn.run('transcription_pipeline.main:app', host=args.host, port=args.port,
              reload=args.reload, log_level=args.log_level)


if __name__ == '__main__':
  # spawn-safe entrypoint for uvicorn reload
  main()
