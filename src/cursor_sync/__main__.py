from cursor_sync.cli import run

if __name__ == "__main__":
    run()
