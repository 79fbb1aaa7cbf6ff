"""Files, directories, mount tables, storage devices and replicas."""
