from email_mcp.app import main

main()
