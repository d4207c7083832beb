from presubmit.cli import main

main()
