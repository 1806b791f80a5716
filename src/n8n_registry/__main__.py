from n8n_registry.cli import main

if __name__ == "__main__":
    main()
