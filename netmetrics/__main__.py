from netmetrics.cli import main

main()
