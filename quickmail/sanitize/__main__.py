from quickmail.sanitize.cli import main

main()
