from release_pilot.cli import main

raise SystemExit(main())
