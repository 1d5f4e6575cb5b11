from flatten_github.cli import main

raise SystemExit(main())
