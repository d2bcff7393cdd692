from follow.follower import main

raise SystemExit(main())
