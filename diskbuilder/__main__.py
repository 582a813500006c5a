import diskbuilder

if __name__ == '__main__':
	diskbuilder.run_as_a_module()
