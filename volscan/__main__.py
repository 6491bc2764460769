from volscan.main import run

run()
