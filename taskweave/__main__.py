from taskweave.main import main

main()
